"""Billing state reconciliation services.

Leaf modules (signature, events, subject, selector, projector) are pure and
free of I/O. The provider gateway, billing store and reconciler perform the
Stripe and Supabase calls.
"""
