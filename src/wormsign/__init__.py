"""wormsign — detect Shai-Hulud 2.0 npm supply chain indicators."""

__version__ = "0.1.0"
