"""Shared configuration, persistence and event schemas."""
