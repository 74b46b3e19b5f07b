from django.apps import AppConfig


class WorkflowConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.workflow"
    label = "workflow"
    verbose_name = "Order item workflow"
