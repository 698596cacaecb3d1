"""Project module -- downstream delivery records for confirmed bookings.

Provides the ProjectModel, Pydantic schemas, the ProjectRepository and the
ProjectMaterializer that turns an executed contract, a confirmed firm
offer or an accepted proposal into exactly one project per deal.
"""
