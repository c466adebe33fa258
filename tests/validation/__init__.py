"""Tests for manifest structural and template validation."""
