"""Bluestack service emulators."""
