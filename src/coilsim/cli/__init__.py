"""coilsim command line interface."""
