"""markerpack: a compiler for overlay marker packs.

This package provides tools for:
- Reading marker pack archives (zip of XML + images + trail binaries)
- Resolving the inheritable category tree into per-category templates
- Normalizing markers and trails into per-map tables
- Persisting packs as an editable JSON tree or a memory-mappable archive

Example usage:
    >>> from markerpack.core.pack import compile_pack
    >>> from markerpack.core.serializers import write_archive, read_archive
    >>>
    >>> # Compile a pack
    >>> pack, diagnostics = compile_pack("tekkit.zip")
    >>> markers = pack.active_markers_for(15)
    >>>
    >>> # Persist and reload
    >>> write_archive(pack, "tekkit.mkpk")
    >>> pack = read_archive("tekkit.mkpk")
"""

__version__ = "0.1.0"
