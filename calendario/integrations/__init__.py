"""calendario.integrations — record stores behind the calendar engine.

All persistence of milestone instances, completions and audit rows goes
through a ``CalendarStore``; services and blueprints never query the
database or call the console backend directly.

Current stores:
  calendar_store.SqlCalendarStore     — Flask-SQLAlchemy
  calendar_gateway.CalendarApiGateway — console REST backend over requests
"""
