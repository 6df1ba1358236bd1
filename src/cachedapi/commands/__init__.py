"""Built-in CLI commands for cachedapi.

Each module defines a Typer app or plain command functions that are
registered on the root application in :func:`cachedapi.app.main`:

* :mod:`~cachedapi.commands.request` -- ``get``, ``post``, ``put``,
  ``patch``, ``delete``.
* :mod:`~cachedapi.commands.cache` -- inspect and clear the disk cache.
* :mod:`~cachedapi.commands.config` -- view and modify configuration.
* :mod:`~cachedapi.commands.token` -- manage stored credentials.
"""
