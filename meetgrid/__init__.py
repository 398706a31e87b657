"""MeetGrid: group meeting-time coordination.

Organizers create an event with candidate dates and an hour range,
participants paint their availability on a grid, and the service ranks the
best meeting times as responses arrive.

A page host embeds ``meetgrid.session.EventSession`` for the event grid and
``meetgrid.datepicker.DateRangePicker`` for the create-event form; both sit
on top of ``meetgrid.gestures`` and ``meetgrid.selection``.
"""

__version__ = "1.0.0"
