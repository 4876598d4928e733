"""
coursesys – rebuilds course sections and schedules from Langara semester search pages.
"""
