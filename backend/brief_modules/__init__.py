"""Module builders, keyed by module id."""

from typing import Awaitable, Callable

from brief_modules.collisions import build_collisions
from brief_modules.dob_permits import build_dob_permits
from brief_modules.events import build_events
from brief_modules.film import build_film
from brief_modules.helpers import BuildServices
from brief_modules.pulse311 import build_pulse311
from brief_modules.right_now import build_right_now
from brief_modules.sanitation import build_sanitation
from brief_modules.street_works import build_street_works
from models import Module, QueryContext

ModuleBuilder = Callable[[QueryContext, BuildServices], Awaitable[Module]]

BUILDERS: dict[str, ModuleBuilder] = {
    "right_now": build_right_now,
    "dob_permits": build_dob_permits,
    "street_works": build_street_works,
    "collisions": build_collisions,
    "311_pulse": build_pulse311,
    "sanitation": build_sanitation,
    "events": build_events,
    "film": build_film,
}
