"""Registry, dispatch, discovery and catalog logic."""
