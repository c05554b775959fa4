from contextlib import contextmanager

from django.contrib.auth import get_user_model
from django_fsm import TransitionNotAllowed

from core.exceptions import InvalidStateTransition, NotFound, ValidationError
from documents.models import DOCUMENT_MODELS


def get_model(kind):
    try:
        return DOCUMENT_MODELS[kind]
    except KeyError:
        raise ValidationError(
            f"Unknown document kind {kind!r}.",
            details={"kind": [f"Choose one of: {', '.join(sorted(DOCUMENT_MODELS))}."]},
        )


def get_document(kind, pk, *, for_update=False):
    """Load a document by kind and id. for_update locks the row until commit."""
    model = get_model(kind)
    if for_update:
        qs = model.objects.select_for_update()
    else:
        qs = model.objects.select_related("created_by")
    try:
        return qs.get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"{model._meta.verbose_name.capitalize()} {pk} not found.")


def resolve_user(user, *, required=True):
    """Accept a user instance or a user id."""
    User = get_user_model()
    if user is None:
        if required:
            raise ValidationError("A user is required.", details={"user": ["This field is required."]})
        return None
    if isinstance(user, User):
        return user
    try:
        return User.objects.get(pk=user)
    except (User.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"User {user} not found.")


def ensure_open(doc, action):
    if not doc.is_open:
        raise InvalidStateTransition(
            f"Cannot {action} {doc.number}: document is {doc.state}."
        )


@contextmanager
def fsm_errors(doc, action):
    """Translate django-fsm refusals into the service error taxonomy."""
    try:
        yield
    except TransitionNotAllowed:
        raise InvalidStateTransition(f"Cannot {action} {doc.number} from state {doc.state}.")
