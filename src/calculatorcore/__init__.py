"""
calculatorcore
==============
Calculation state engine for an interactive keypad calculator.

The package is split the same way the application is layered:

* ``model``      pure data structures, strategy tables and persistence.
* ``controller`` the engine, its undo history and the change bus.
* ``app``        composition root and the Qt signal bridge for views.
"""
