"""
Módulo de facturación electrónica (Hacienda, Costa Rica).

Valida y arma el comprobante de una factura, lo envía al API de recepción
y traduce la respuesta a un estado fiscal independiente del estado de pago.
"""
