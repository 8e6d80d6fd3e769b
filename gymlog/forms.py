import math
import re
from datetime import date as _date

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_clean = lambda s: re.sub(r'[\x00-\x1f\x7f]', '', (s or '').strip())


def validate_entry_form(form, require_date: bool = True) -> tuple[list, dict]:
    """Validate and sanitize set input; returns (errors, cleaned_data).

    Only presence and numeric parsing are checked, no ranges.
    """
    errors: list[str] = []
    exercise = _clean(form.get('exercise', ''))
    weight_str = form.get('weight', '').strip()
    reps_str = form.get('reps', '').strip()
    set_str = form.get('set_number', '').strip()
    cleaned = {}
    if require_date:
        day = form.get('date', '').strip()
        if not day:
            errors.append('Please enter a date.')
        elif not DATE_RE.match(day):
            errors.append('Date must be in YYYY-MM-DD format.')
        cleaned['date'] = day
    if not exercise or not weight_str or not reps_str or not set_str:
        errors.append('Exercise, weight, reps and set number are all required.')
        return errors, {}
    try:
        weight = float(weight_str)
        reps = int(reps_str)
        set_number = int(set_str)
        if not math.isfinite(weight):
            raise ValueError
    except ValueError:
        errors.append('Weight must be a number; reps and set number must be whole numbers.')
        return errors, {}
    if errors:
        return errors, {}
    cleaned.update({
        'exercise': exercise,
        'weight': weight,
        'reps': reps,
        'set_number': set_number,
    })
    return errors, cleaned


def validate_login_form(form) -> tuple[list, dict]:
    email = _clean(form.get('email', ''))
    password = form.get('password', '')
    if not email or not password:
        return ['Please enter both email and password.'], {}
    return [], {'email': email, 'password': password}


def today() -> str:
    return _date.today().isoformat()
