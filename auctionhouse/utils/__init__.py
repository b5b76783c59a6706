"""Shared utilities: logging, validation, unit conversion"""
