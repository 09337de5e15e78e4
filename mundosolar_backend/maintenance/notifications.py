"""Notifications emitted by the maintenance workflow."""

from notifications.services import notify_admins, notify_client

from .models import MaintenanceRecord

Status = MaintenanceRecord.Status

STATUS_UPDATE_TITLE = "Actualización de Mantenimiento"

_STATUS_MESSAGES = {
    Status.SCHEDULED: 'Su mantenimiento "{title}" ha sido programado',
    Status.IN_PROGRESS: 'El mantenimiento "{title}" está en progreso',
    Status.COMPLETED: 'El mantenimiento "{title}" ha sido completado',
    Status.CANCELLED: 'El mantenimiento "{title}" ha sido cancelado',
}


def status_message(maintenance: MaintenanceRecord):
    template = _STATUS_MESSAGES.get(maintenance.status)
    if template is None:
        return None
    return template.format(title=maintenance.title)


def notify_client_of_status(maintenance: MaintenanceRecord):
    message = status_message(maintenance)
    if message is None:
        return None
    return notify_client(
        maintenance.client,
        type=f"maintenance_{maintenance.status.lower()}",
        title=STATUS_UPDATE_TITLE,
        message=message,
        data={"maintenanceId": maintenance.pk, "status": maintenance.status},
    )


def notify_admins_of_request(maintenance: MaintenanceRecord) -> int:
    client = maintenance.client
    return notify_admins(
        type="maintenance_request",
        title="Nueva Solicitud de Mantenimiento",
        message=(
            f"{client.full_name} ha solicitado un mantenimiento: {maintenance.title}"
        ),
        data={
            "maintenanceId": maintenance.pk,
            "clientId": client.pk,
            "type": maintenance.type,
        },
    )
