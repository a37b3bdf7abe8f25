from . import apps, concepts, jobs, media_jobs, routing, tasks

__all__ = ["apps", "concepts", "jobs", "media_jobs", "routing", "tasks"]
