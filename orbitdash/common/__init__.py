"""Shared configuration, logging, errors and scheduling."""
