"""
Jobs package for background task management.

Provides the job manager that runs tradeoff sweeps and network training
off the request path.
"""

from .manager import Job, JobManager, JobStatus, JobType, job_manager

__all__ = ["job_manager", "Job", "JobManager", "JobStatus", "JobType"]
