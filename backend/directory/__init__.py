# backend/directory/__init__.py
# Healthcare-center directory

from .centers import HealthcareCenter, CenterDirectory, center_directory, load_centers

__all__ = ["HealthcareCenter", "CenterDirectory", "center_directory", "load_centers"]
