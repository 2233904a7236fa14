from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from django.apps import apps
from django.db import DatabaseError, transaction

from .errors import PersistenceError

logger = logging.getLogger(__name__)

PERMISSION_ACTIONS = {
    "view": "view",
    "update": "change",
    "delete": "delete",
    "create": "add",
}


class EntityStorage(ABC):
    @abstractmethod
    def save(self, record) -> Any: ...

    @abstractmethod
    def delete(self, record_id) -> None: ...

    @abstractmethod
    def exists(self, record_id) -> bool: ...

    @abstractmethod
    def load(self, record_id) -> Any: ...

    @abstractmethod
    def check_access(self, record, operation: str) -> bool: ...


class ModelStorage(EntityStorage):
    """Storage for a Django model, with access checked against model permissions.

    Without a user every operation is allowed, which is what management
    commands and signal handlers need.
    """

    def __init__(self, model, user=None):
        if isinstance(model, str):
            model = apps.get_model(model)
        self.model = model
        self.user = user

    def save(self, record):
        try:
            with transaction.atomic():
                record.save()
        except DatabaseError as exc:
            raise PersistenceError(f"Could not save {record!r}: {exc}", record_id=record.pk) from exc
        return record.pk

    def delete(self, record_id) -> None:
        try:
            with transaction.atomic():
                self.model._default_manager.filter(pk=record_id).delete()
        except DatabaseError as exc:
            raise PersistenceError(f"Could not delete {record_id!r}: {exc}", record_id=record_id) from exc

    def exists(self, record_id) -> bool:
        try:
            return self.model._default_manager.filter(pk=record_id).exists()
        except (TypeError, ValueError):
            return False

    def load(self, record_id) -> Optional[Any]:
        try:
            return self.model._default_manager.filter(pk=record_id).first()
        except (TypeError, ValueError):
            return None

    def check_access(self, record, operation: str) -> bool:
        if self.user is None:
            return True
        action = PERMISSION_ACTIONS.get(operation)
        if action is None:
            logger.debug("Unknown operation %r, denying access", operation)
            return False
        opts = self.model._meta
        return self.user.has_perm(f"{opts.app_label}.{action}_{opts.model_name}")
