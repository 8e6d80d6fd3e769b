from dataclasses import dataclass, field, asdict
from typing import Optional


@dataclass
class WorkoutEntry:
    """One recorded set, as persisted by the entry store."""

    id: str
    user_id: str
    date: str
    exercise: str
    weight: float
    reps: int
    set_number: int

    @property
    def volume(self):
        return self.weight * self.reps

    @classmethod
    def from_row(cls, row: dict) -> "WorkoutEntry":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            date=row["date"],
            exercise=row.get("exercise", ""),
            weight=row.get("weight", 0),
            reps=row.get("reps", 0),
            set_number=row.get("set_number", 0),
        )


@dataclass
class NewEntry:
    """Insert payload: owner id plus every column except the generated id."""

    user_id: str
    date: str
    exercise: str
    weight: float
    reps: int
    set_number: int

    def to_row(self) -> dict:
        return asdict(self)


@dataclass
class EntryChanges:
    exercise: str
    weight: float
    reps: int
    set_number: int

    def to_row(self) -> dict:
        return asdict(self)


@dataclass
class DailySummary:
    date: str
    total_volume: float
    sets: list = field(default_factory=list)


@dataclass
class CurrentUser:
    id: str
    email: str

    def to_session(self) -> dict:
        return {"id": self.id, "email": self.email}

    @classmethod
    def from_session(cls, data: Optional[dict]) -> Optional["CurrentUser"]:
        if not data or not data.get("id"):
            return None
        return cls(id=data["id"], email=data.get("email", ""))


@dataclass
class AuthSession:
    """Result of a successful sign-in or sign-up."""

    user: CurrentUser
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
