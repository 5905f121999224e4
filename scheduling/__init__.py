# scheduling package
#
# Framework-light scheduling engine shared by the providers and appointments
# apps: interval math, working-hours policy, conflict detection, slot
# generation, lifecycle rules, recurrence expansion and per-provider locks.
# Nothing in here touches the database.
