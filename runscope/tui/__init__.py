"""Interactive monitor: session state, controller and Textual front end."""
