import logging

from django.db.models.signals import pre_delete

from .errors import PersistenceError

logger = logging.getLogger(__name__)


def delete_references(parent, field_name, storage):
    """Delete every record the parent's reference field points at."""
    related = getattr(parent, field_name)
    if hasattr(related, "all"):
        record_ids = list(related.all().values_list("pk", flat=True))
    else:
        record_ids = [related.pk] if related is not None else []

    deleted = []
    for record_id in record_ids:
        try:
            storage.delete(record_id)
        except PersistenceError:
            logger.exception("Failed to delete %r referenced by %r", record_id, parent)
            continue
        deleted.append(record_id)
    if deleted:
        logger.info("Deleted %d record(s) referenced by %r.%s", len(deleted), parent, field_name)
    return deleted


def connect_reference_cleanup(model, field_name, storage, settings):
    """Delete referenced records along with their parent.

    Does nothing unless the widget settings ask for ``delete_references``.
    Returns the receiver so callers can disconnect it.
    """
    if not settings.delete_references:
        return None

    def cleanup_references(sender, instance, **kwargs):
        delete_references(instance, field_name, storage)

    pre_delete.connect(
        cleanup_references,
        sender=model,
        weak=False,
        dispatch_uid=_dispatch_uid(model, field_name),
    )
    return cleanup_references


def disconnect_reference_cleanup(model, field_name):
    return pre_delete.disconnect(sender=model, dispatch_uid=_dispatch_uid(model, field_name))


def _dispatch_uid(model, field_name):
    return f"inline_entity_form:{model._meta.label_lower}:{field_name}"
