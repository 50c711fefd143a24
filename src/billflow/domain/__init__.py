"""Domain layer for billflow application.

Services live in their own modules (``billflow.domain.payments`` and so on)
and are imported from there, so that the database package can depend on
``billflow.domain.entities`` without a circular import.
"""
