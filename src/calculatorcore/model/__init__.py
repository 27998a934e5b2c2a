"""
The MODEL layer contains pure data structures and business logic.
It has NO knowledge of the GUI (Qt) or of the engine that drives it.
It deals with State, Arithmetic, and I/O.
"""
