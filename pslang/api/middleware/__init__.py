"""Request middleware for the PS-LANG API"""
