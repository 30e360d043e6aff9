"""Diff tracking, retention and linear revert for versioned CMS pages."""
