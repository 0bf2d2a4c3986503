"""Guided Reader overlay engine: annotations, selections and caption highlights.

WHY: A reading interface layers three independent marking systems over the
same rendered text: persisted annotation intervals, the user's current
selection, and the caption cue that matches the audio playback position.
All three must agree on one coordinate space, plain-text character offsets,
or annotations drift away from the words they were written about.

HOW: Three layers. The core package renders annotated markup, maps tree
positions back to offsets, tracks selections and synchronises highlights.
The api package fetches texts and caption tracks. The server and cli
modules expose the core over HTTP and the terminal.

RULES:
- Offsets are always counted over whitespace-normalized plain text
- The core never raises on bad upstream data; it degrades to a no-op
- The rendered tree is only ever mutated from one event loop
"""

__version__ = "0.1.0"
