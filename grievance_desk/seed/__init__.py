# Seed data for a fresh Grievance Desk database
