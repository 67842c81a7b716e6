"""Vellum: package resolution and deployment for CMS installations."""

from vellum.__version__ import __version__
