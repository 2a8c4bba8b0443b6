"""
Módulo de Contactos

Entidad única para clientes y proveedores:

- Tipos flexibles (cliente, proveedor, o ambos)
- Identificación fiscal costarricense (física, jurídica, DIMEX, NITE)
- Ubicación con los códigos de Hacienda, requerida por el comprobante electrónico
- Soft delete para mantener integridad referencial
- Integración con Invoices (clientes) y Bills (proveedores)

Los modelos se importan desde ``app.modules.contacts.models``.
"""
