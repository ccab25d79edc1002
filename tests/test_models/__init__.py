"""Tests for the job, phase, outcome and event models."""
