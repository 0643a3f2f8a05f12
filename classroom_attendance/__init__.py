"""Classroom attendance from a single group photo.

Students are registered with one reference photo each; a group photo is then
matched face-by-face against the registered descriptors and the roster is split
into present and absent students.
"""
