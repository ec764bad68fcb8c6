# Care-request services: store, lifecycle engine, matching gateway, change feed.
# Modules are imported by path (urgentcare.services.lifecycle, ...) so that the
# schema layer can depend on status/urgency without pulling in the store.
