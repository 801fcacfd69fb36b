"""
Jobs package for background task management.

Provides the job manager that runs and tracks training jobs.
"""

from .manager import Job, JobManager, JobStatus, JobType, job_manager

__all__ = ["job_manager", "Job", "JobManager", "JobStatus", "JobType"]
