"""Shared configuration models used by every service."""
