"""Firm offer module -- logistics intake and speaker confirmation.

Provides the FirmOfferModel, typed section schemas, flat-form intake
coercion, the FirmOfferRepository and the FirmOfferEngine.
"""
