"""Milestone templates per release type.

Built-in templates follow common industry lead times before a release date.
A YAML file can add or replace them per project type.
"""
