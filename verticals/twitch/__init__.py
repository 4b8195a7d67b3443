"""Twitch vertical: EventSub webhook ingestion, tenant onboarding and the live feed."""
