__version__ = "0.1.0"

from .expand import CombineMode, JobSet, expand
from .template import CommandTemplate
from .scheduler import Scheduler
from .collate import OutputCollator
from .runner import prepare, run_plan, run_parallel
from .config import RunConfig
from .model import Command, Job, JobSpec, JobState, RunSummary

__all__ = [
    "CombineMode", "JobSet", "expand", "CommandTemplate", "Scheduler", "OutputCollator",
    "prepare", "run_plan", "run_parallel", "RunConfig",
    "Command", "Job", "JobSpec", "JobState", "RunSummary",
]
