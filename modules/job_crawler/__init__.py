# Keep this TINY: importing the package should only register the built-in sites.
from . import lib  # so: from modules.job_crawler import lib
from .main import run  # so: from modules.job_crawler import run

__all__ = ["lib", "run"]
