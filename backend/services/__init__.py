# Services module exports
from .auth import create_access_token
from .weddings import (
    create_wedding, get_wedding, get_wedding_by_slug, get_owned_wedding,
    list_weddings_for_user, list_public_weddings, update_wedding,
    publish_wedding, delete_wedding, increment_views, set_counters,
)
from .guests import (
    create_guest, bulk_create_guests, get_guest, update_guest, delete_guest,
    list_guests, get_guests_by_import_batch, delete_import_batch,
)
from .rsvps import (
    submit_rsvp, add_manual_rsvp, get_rsvp, update_rsvp, delete_rsvp,
    list_rsvps, export_rsvps, mark_confirmation_sent,
)
from .statistics import compute_statistics, daily_trend
from .reconciler import CounterReconciler
