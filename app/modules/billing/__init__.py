"""
Núcleo del ciclo de vida de documentos de cobro y pago.

Componentes:
- states.py: máquina de estados (pending/partial/paid/overdue/annulled)
- ledger.py: registro de pagos y saldo pendiente
- documents.py: operaciones compartidas por facturas de venta y de proveedor
- reconciliation.py: reclasificación periódica de documentos vencidos
- models.py: condiciones de pago (Contado, Crédito N días)
"""
