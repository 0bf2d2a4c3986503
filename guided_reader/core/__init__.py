"""Core overlay engine: rendering, offset mapping, selection and highlighting.

WHY: Annotations, selections and caption highlights all mark the same
rendered text and are all addressed by plain-text character offsets. The
core package is the one place that knows how those offsets map onto the
rendered tree.

HOW: ir.py defines the data structures, text.py the shared normalization
and traversal, overlay.py renders intervals, offsets.py maps tree positions
to offsets, selection.py and highlight.py drive the two interactive layers,
and session.py ties them to one ReaderContext.

RULES:
- Every component counts characters with core.text traversal
- The core never raises for bad user input; it logs and no-ops
"""
