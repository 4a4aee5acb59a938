"""Utility modules for wg-tracker."""
