"""Resilient request core for the Supabase management API."""
