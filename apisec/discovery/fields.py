"""
Which form field gets the login identifier and which gets the password.

Rules are ``(predicate, role)`` pairs tried in order; the first rule that
matches an unfilled role wins, so exact names beat substring guesses.
"""

from collections.abc import Callable
from enum import Enum

from apisec.crawler.forms import FormField, HtmlForm


class FieldRole(Enum):
    IDENTITY = "identity"
    SECRET = "secret"
    UNKNOWN = "unknown"


def _named(*names: str) -> Callable[[FormField], bool]:
    wanted = {n.lower() for n in names}
    return lambda f: f.name.lower() in wanted


def _name_contains(fragment: str) -> Callable[[FormField], bool]:
    return lambda f: fragment in f.name.lower()


def _typed(type_: str) -> Callable[[FormField], bool]:
    return lambda f: f.type == type_


FIELD_RULES: list[tuple[Callable[[FormField], bool], FieldRole]] = [
    (_named("email"), FieldRole.IDENTITY),
    (_named("username"), FieldRole.IDENTITY),
    (_named("user"), FieldRole.IDENTITY),
    (_named("email_address"), FieldRole.IDENTITY),
    (_named("user[email]"), FieldRole.IDENTITY),
    (_named("password"), FieldRole.SECRET),
    (_named("pass"), FieldRole.SECRET),
    (_named("user[password]"), FieldRole.SECRET),
    (_typed("email"), FieldRole.IDENTITY),
    (_typed("password"), FieldRole.SECRET),
    (_name_contains("email"), FieldRole.IDENTITY),
    (_name_contains("user"), FieldRole.IDENTITY),
    (_name_contains("login"), FieldRole.IDENTITY),
    (_name_contains("pass"), FieldRole.SECRET),
]


def classify_field(field: FormField) -> FieldRole:
    for predicate, role in FIELD_RULES:
        if predicate(field):
            return role
    return FieldRole.UNKNOWN


def assign_roles(fields: list[FormField]) -> dict[FieldRole, str]:
    """Field name chosen for each role, in rule priority order."""
    chosen: dict[FieldRole, str] = {}
    taken: set[str] = set()
    for predicate, role in FIELD_RULES:
        if role in chosen:
            continue
        for f in fields:
            if f.name not in taken and f.type not in ("hidden", "submit") and predicate(f):
                chosen[role] = f.name
                taken.add(f.name)
                break
    return chosen


def fill_form(form: HtmlForm, identity: str, secret: str) -> dict[str, str]:
    """Form body: defaults for every field, credentials in the chosen slots."""
    body = form.defaults()
    roles = assign_roles(form.fields)
    if FieldRole.IDENTITY in roles:
        body[roles[FieldRole.IDENTITY]] = identity
    if FieldRole.SECRET in roles:
        body[roles[FieldRole.SECRET]] = secret
        # confirmation boxes ("password2", "confirm_password")
        for f in form.fields:
            if f.name != roles[FieldRole.SECRET] and classify_field(f) is FieldRole.SECRET:
                body[f.name] = secret
    return body
