"""
UTILITIES PACKAGE
=================

Helpers used by the services (no HTTP, no business logic):

  time_info - now(), today(), time_label() and next_turn_id() for turns and documents.
"""
