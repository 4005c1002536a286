"""
Servicios de negocio del motor de reservas.

Cada servicio expone métodos estáticos que reciben la sesión (`db: Session`).
Los que escriben abren su propia transacción vía database.transaction.
"""
