from enum import Enum


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    DEAD = "DEAD"


# A failed attempt goes RUNNING -> PENDING with a later next_attempt_at.
VALID_TRANSITIONS = {
    JobStatus.PENDING: [JobStatus.RUNNING],
    JobStatus.RUNNING: [JobStatus.COMPLETED, JobStatus.PENDING, JobStatus.DEAD],
    JobStatus.COMPLETED: [],
    JobStatus.DEAD: [JobStatus.PENDING],
}


class InvalidJobTransitionError(Exception):
    def __init__(self, from_status: JobStatus, to_status: JobStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid job transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    """Check if transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def transition(from_status: JobStatus, to_status: JobStatus) -> JobStatus:
    """Perform status transition. Raises InvalidJobTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidJobTransitionError(from_status, to_status)
    return to_status


def start(current: JobStatus) -> JobStatus:
    """Worker picked the job up."""
    return transition(current, JobStatus.RUNNING)


def complete(current: JobStatus) -> JobStatus:
    return transition(current, JobStatus.COMPLETED)


def retry(current: JobStatus) -> JobStatus:
    """Failed attempt, back to the queue (also used by operators on DEAD jobs)."""
    return transition(current, JobStatus.PENDING)


def bury(current: JobStatus) -> JobStatus:
    """Attempts exhausted."""
    return transition(current, JobStatus.DEAD)
