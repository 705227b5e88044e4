# Overview: "data changed" signal used as the refresh trigger for pollers and caches.
"""
Subscribers receive ``sender`` plus an ``entity`` keyword naming what changed:
"products", "sales", "settings", "users" or "held_invoices".

The server sends it after a successful commit; the terminal sends it after its
own writes. Pollers subscribe to it, so a push transport can replace the
timers without touching the domain operations.
"""
from blinker import Namespace

_signals = Namespace()

data_changed = _signals.signal("data-changed")


def notify_changed(sender, *entities: str) -> None:
    for entity in entities:
        data_changed.send(sender, entity=entity)
