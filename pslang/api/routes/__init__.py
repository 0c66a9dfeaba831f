"""Route modules for the PS-LANG API"""
