"""
The CONTROLLER layer drives the model: the calculation engine, its undo
history and the change bus views subscribe to.
"""
