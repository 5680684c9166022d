"""Telephone job-board line: IVR call flows over a shared job-board store."""
