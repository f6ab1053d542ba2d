from wecarry.platform.worker.config import WorkerConfig
from wecarry.platform.worker.worker import Job, PermanentJobError, Worker

__all__ = ["Job", "PermanentJobError", "Worker", "WorkerConfig"]
