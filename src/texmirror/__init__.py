"""texmirror: compile a restricted LaTeX subset into a static HTML site."""

__version__ = "0.1.0"
