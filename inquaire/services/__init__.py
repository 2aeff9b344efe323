from inquaire.services.job_state import (
    InvalidJobTransitionError,
    JobStatus,
    can_transition,
    transition,
)
from inquaire.services.replay_guard import ReplayGuard, build_event_id
