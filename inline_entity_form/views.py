from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from django.http import HttpRequest, HttpResponse

from .cache import FormStateCache
from .controller import ActionResult
from .errors import PersistenceError, RowValidationError
from .field_widgets import InlineEntityFormMultiple

logger = logging.getLogger(__name__)

BUILD_ID_FIELD = "ief_form_build_id"


def is_htmx(request: HttpRequest) -> bool:
    return request.headers.get("HX-Request") == "true"


class InlineEntityForms:
    """Runs the inline entity form widgets of one parent edit view.

    A view builds one of these per request, passing each widget with the
    records its field currently references. Widget button presses are
    handled by ``handle_action``; the parent form's final submission goes
    through ``extract`` and, once the parent is saved, ``finish``::

        ief = InlineEntityForms(request, [(widget, user.groups.all())])
        if ief.handle_action():
            return ief.partial_response() if is_htmx(request) else render_page()
        if request.method == "POST" and form.is_valid():
            values = ief.extract(form)
            if values is not None:
                ...
                ief.finish()
    """

    def __init__(self, request: HttpRequest, widgets: Iterable[tuple[InlineEntityFormMultiple, Iterable[Any]]], cache: Optional[FormStateCache] = None):
        self.request = request
        self.widgets = [(widget, list(items)) for widget, items in widgets]
        self.cache = cache or FormStateCache()
        build_id = request.POST.get(BUILD_ID_FIELD, "") if request.method == "POST" else ""
        self.store = self.cache.load_or_create(build_id)
        self.result: Optional[ActionResult] = None
        self.triggered: Optional[InlineEntityFormMultiple] = None
        for widget, items in self.widgets:
            widget.prepare(self.store, items)

    @property
    def build_id(self) -> str:
        return self.store.build_id

    def handle_action(self) -> bool:
        if self.request.method != "POST":
            self.cache.save(self.store)
            return False
        for widget, items in self.widgets:
            if not widget.owns_trigger(self.request.POST):
                continue
            self.result = widget.handle_action(self.store, self.request.POST, items)
            self.triggered = widget
            self.cache.save(self.store)
            return True
        return False

    def render(self, widget: InlineEntityFormMultiple) -> str:
        items = next((items for candidate, items in self.widgets if candidate is widget), [])
        result = self.result if widget is self.triggered else None
        return widget.render(self.store, self.request, items=items, result=result)

    def rendered(self) -> dict[str, str]:
        return {widget.field.name: self.render(widget) for widget, _ in self.widgets}

    def partial_response(self) -> HttpResponse:
        """The re-rendered wrapper of the widget whose button was pressed."""
        if self.triggered is None:
            return HttpResponse(status=204)
        return HttpResponse(self.render(self.triggered))

    def extract(self, form=None) -> Optional[dict[str, list[dict]]]:
        """Reconcile every widget; returns ``None`` and records errors on failure."""
        values = {}
        for widget, items in self.widgets:
            try:
                values[widget.field.name] = widget.extract_form_values(self.store, self.request.POST, items)
            except (RowValidationError, PersistenceError) as exc:
                self._report(widget, exc, form)
                self.cache.save(self.store)
                return None
        return values

    def finish(self) -> None:
        self.cache.discard(self.store)

    def _report(self, widget, exc, form) -> None:
        label = widget.field.label or widget.field.name
        messages = getattr(exc, "messages", None) or [str(exc)]
        if exc.delta is not None:
            messages = [f"{label} item {exc.delta + 1}: {message}" for message in messages]
        logger.info("Inline entity form %s rejected submission: %s", widget.ief_id, "; ".join(messages))
        if form is not None:
            for message in messages:
                form.add_error(None, message)
