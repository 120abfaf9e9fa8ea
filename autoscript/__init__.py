"""Automation scripts: declarative definitions, templated messages, deferred delivery."""
