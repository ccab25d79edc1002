"""Tests for logging, metrics and the transaction error monitor."""
