"""
Módulo de Gastos (Bills)

Facturas de proveedor (cuentas por pagar):

- Bills: IVA a nivel de documento (porcentaje_impuesto), incrementan stock
- Líneas de bonificación (sin costo) que igual ingresan inventario
- BillPayments: Pagos con control automático de estados
- DebitNotes: ajustes del proveedor que aumentan total y saldo
- Anulación: revierte el ingreso de inventario y deja saldo en cero
"""
