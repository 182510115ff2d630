"""DeskPulse command line application."""
