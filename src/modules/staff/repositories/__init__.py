"""Worker repositories package."""

from modules.staff.repositories.django_repository import WorkerDjangoRepository
from modules.staff.repositories.interfaces import IWorkerRepository

__all__ = ["IWorkerRepository", "WorkerDjangoRepository"]
