import re
from typing import Optional

from flask import (
    Flask,
    current_app,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    session,
    url_for,
)

from .aggregation import group_by_date, total_volume
from .auth import (
    AuthError,
    current_user,
    end_session,
    get_auth_provider,
    login_required,
    start_session,
)
from .charts import volume_chart
from .export import history_pdf
from .forms import DATE_RE, today, validate_entry_form, validate_login_form
from .models import EntryChanges, NewEntry
from .store import SessionExpiredError, StoreError, get_store

ENTRY_ID_RE = re.compile(r'^[\w-]{1,64}$')


def _safe_day(value: Optional[str]) -> Optional[str]:
    value = (value or '').strip()
    return value if DATE_RE.match(value) else None


async def login():
    mode = request.values.get('mode', 'login')
    if mode not in ('login', 'signup'):
        mode = 'login'
    if request.method == 'GET':
        if current_user() is not None:
            return redirect(url_for('index'))
        return render_template('login.html', mode=mode)

    errors, creds = validate_login_form(request.form)
    if errors:
        flash('; '.join(errors), 'error')
        return redirect(url_for('login', mode=mode))
    provider = get_auth_provider()
    action = provider.sign_up if mode == 'signup' else provider.sign_in
    try:
        auth_session = await action(creds['email'], creds['password'])
    except AuthError as e:
        current_app.logger.info(f"{mode} rejected: {e}")
        flash(str(e) or 'Something went wrong.', 'error')
        return redirect(url_for('login', mode=mode))

    user = await provider.get_user(auth_session.access_token)
    if user is None:
        if mode == 'signup':
            flash('Sign-up succeeded. Confirm your email address, then log in.', 'success')
        else:
            flash('Could not start a session. Please try again.', 'error')
        return redirect(url_for('login', mode='login'))
    start_session(user, auth_session)
    if mode == 'signup':
        flash('Sign-up succeeded. You are now logged in.', 'success')
    return redirect(url_for('index'))


async def logout():
    provider = get_auth_provider()
    await provider.sign_out(session.get('access_token'), session.get('refresh_token'))
    end_session()
    flash('Logged out.', 'success')
    return redirect(url_for('login'))


@login_required
async def index():
    day = _safe_day(request.args.get('date')) or today()
    entries = []
    try:
        entries = await get_store().fetch_entries(g.user.id, day)
    except StoreError as e:
        current_app.logger.error(f"Failed to fetch entries for {day}: {e}")
        flash('Could not load your sets. Please try again.', 'error')
    return render_template(
        'index.html',
        day=day,
        entries=entries,
        total=total_volume(entries),
        active='today',
    )


@login_required
async def add_entry():
    errors, data = validate_entry_form(request.form)
    day = _safe_day(request.form.get('date'))
    if errors:
        flash('; '.join(errors), 'error')
        return redirect(url_for('index', date=day))
    entry = NewEntry(user_id=g.user.id, **data)
    try:
        await get_store().create_entry(entry)
    except StoreError as e:
        current_app.logger.error(f"Failed to save set for {entry.date}: {e}")
        flash('Saving to the database failed. Please try again.', 'error')
        return redirect(url_for('index', date=day))
    flash(f"Added {entry.exercise} {entry.weight:g} kg x {entry.reps} (set {entry.set_number})!", 'success')
    return redirect(url_for('index', date=day))


@login_required
async def history():
    summaries = []
    try:
        entries = await get_store().fetch_entries(g.user.id)
        summaries = group_by_date(entries)
    except StoreError as e:
        current_app.logger.error(f"Failed to fetch history: {e}")
        flash('Could not load your history. Please try again.', 'error')
    return render_template(
        'history.html',
        summaries=summaries,
        chart_img=volume_chart(summaries),
        active='history',
    )


@login_required
async def edit_entry(entry_id: str):
    if not ENTRY_ID_RE.match(entry_id):
        flash('Unknown entry.', 'error')
        return redirect(url_for('history'))
    errors, data = validate_entry_form(request.form, require_date=False)
    if errors:
        flash('; '.join(errors), 'error')
        return redirect(url_for('history'))
    try:
        await get_store().update_entry(entry_id, g.user.id, EntryChanges(**data))
    except StoreError as e:
        current_app.logger.error(f"Failed to update entry {entry_id}: {e}")
        flash('Updating the set failed. Please try again.', 'error')
        return redirect(url_for('history'))
    flash('Set updated.', 'success')
    return redirect(url_for('history'))


@login_required
async def delete_entry(entry_id: str):
    if not ENTRY_ID_RE.match(entry_id):
        flash('Unknown entry.', 'error')
        return redirect(url_for('history'))
    try:
        await get_store().delete_entry(entry_id, g.user.id)
    except StoreError as e:
        current_app.logger.error(f"Failed to delete entry {entry_id}: {e}")
        flash('Deleting the set failed. Please try again.', 'error')
        return redirect(url_for('history'))
    flash('Set deleted.', 'success')
    return redirect(url_for('history'))


@login_required
async def export_pdf():
    try:
        entries = await get_store().fetch_entries(g.user.id)
    except StoreError as e:
        current_app.logger.error(f"Failed to fetch entries for export: {e}")
        flash('Could not build the report. Please try again.', 'error')
        return redirect(url_for('history'))
    pdf = history_pdf(g.user, group_by_date(entries))
    return send_file(pdf, mimetype='application/pdf', as_attachment=True,
                     download_name='training_history.pdf')


def session_expired(e):
    end_session()
    flash('Your session has expired. Please log in again.', 'error')
    return redirect(url_for('login'))


def healthz():
    """Lightweight health check endpoint for Kubernetes probes."""
    return jsonify(status='ok', backend=current_app.config['STORE_BACKEND'])


def register_routes(app: Flask) -> None:
    app.add_url_rule('/login', 'login', login, methods=['GET', 'POST'])
    app.add_url_rule('/logout', 'logout', logout, methods=['POST'])
    app.add_url_rule('/', 'index', index, methods=['GET'])
    app.add_url_rule('/entries', 'add_entry', add_entry, methods=['POST'])
    app.add_url_rule('/entries/<entry_id>/edit', 'edit_entry', edit_entry, methods=['POST'])
    app.add_url_rule('/entries/<entry_id>/delete', 'delete_entry', delete_entry, methods=['POST'])
    app.add_url_rule('/history', 'history', history, methods=['GET'])
    app.add_url_rule('/history/export', 'export_pdf', export_pdf, methods=['GET'])
    app.add_url_rule('/healthz', 'healthz', healthz, methods=['GET'])
    app.register_error_handler(SessionExpiredError, session_expired)
