"""
Módulo de Facturación (Invoices)

Facturas de venta (cuentas por cobrar):

- Precios por cliente (precio fijo / descuento) al crear líneas
- IVA por línea (13% por defecto)
- Descarga de inventario al registrar y reversión al anular
- Pagos parciales y completos con control automático de estado
- Contado: la factura nace pagada con un pago automático
- Numeración consecutiva y clave de Hacienda
"""
