"""arq task functions."""
from dropship.tasks.import_tasks import import_product_task, recover_stale_import_jobs
from dropship.tasks.notification_tasks import send_notification_task

__all__ = [
    "import_product_task",
    "recover_stale_import_jobs",
    "send_notification_task",
]
