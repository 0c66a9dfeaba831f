"""Identity provider access and role resolution"""
