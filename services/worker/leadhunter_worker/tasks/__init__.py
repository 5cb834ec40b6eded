"""LeadHunter Worker Tasks."""

# Import all tasks to register them with Celery
from leadhunter_worker.tasks import hunting  # noqa: F401
from leadhunter_worker.tasks import responses  # noqa: F401
